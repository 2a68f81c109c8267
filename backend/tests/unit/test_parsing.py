"""
Unit Tests — Tolerant model-output parsing
══════════════════════════════════════════
Flashcards and quiz questions must survive everything models actually send:
bare arrays, envelope objects, markdown fences, prose around the JSON, and
partially invalid items.
"""

from __future__ import annotations

import pytest

from study_assistant.llm.parsing import (
    load_json,
    parse_flashcards,
    parse_quiz,
    salvage_json,
    strip_fences,
)


@pytest.mark.unit
class TestJsonRecovery:

    def test_strip_fences_with_language_tag(self):
        assert strip_fences('```json\n[1, 2]\n```') == "[1, 2]"

    def test_strip_fences_leaves_plain_text(self):
        assert strip_fences("  [1, 2]  ") == "[1, 2]"

    def test_salvage_skips_prose(self):
        text = 'Sure! Here you go: {"cards": [{"question": "q", "answer": "a"}]} Enjoy.'
        assert salvage_json(text) == {"cards": [{"question": "q", "answer": "a"}]}

    def test_salvage_ignores_brackets_inside_strings(self):
        text = 'prefix [{"question": "What is [x]?", "answer": "a}"}] suffix'
        assert salvage_json(text) == [{"question": "What is [x]?", "answer": "a}"}]

    def test_salvage_returns_none_for_unbalanced(self):
        assert salvage_json('[{"question": "q"') is None

    def test_load_json_empty(self):
        assert load_json(None) is None
        assert load_json("") is None


@pytest.mark.unit
class TestParseFlashcards:

    def test_bare_array(self):
        raw = '[{"question": "Q1", "answer": "A1"}, {"question": "Q2", "answer": "A2"}]'
        cards = parse_flashcards(raw, 10)
        assert [(c.question, c.answer) for c in cards] == [("Q1", "A1"), ("Q2", "A2")]

    @pytest.mark.parametrize("key", ["flashcards", "cards"])
    def test_envelope_keys(self, key):
        raw = f'{{"{key}": [{{"question": "Q", "answer": "A"}}]}}'
        assert len(parse_flashcards(raw, 10)) == 1

    def test_fenced_envelope(self):
        raw = '```json\n{"flashcards": [{"question": "Q", "answer": "A"}]}\n```'
        assert parse_flashcards(raw, 10)[0].question == "Q"

    def test_invalid_items_are_dropped(self):
        raw = (
            '[{"question": "Q1", "answer": "A1"},'
            ' {"question": "", "answer": "A2"},'
            ' {"question": "Q3"},'
            ' "not an object",'
            ' {"question": "  Q5  ", "answer": "  A5 "}]'
        )
        cards = parse_flashcards(raw, 10)
        assert [(c.question, c.answer) for c in cards] == [("Q1", "A1"), ("Q5", "A5")]

    def test_truncated_to_count(self):
        raw = "[" + ",".join(f'{{"question": "Q{i}", "answer": "A{i}"}}' for i in range(15)) + "]"
        assert len(parse_flashcards(raw, 10)) == 10

    def test_unparseable_yields_empty(self):
        assert parse_flashcards("I cannot help with that.", 10) == []

    def test_wrong_envelope_yields_empty(self):
        assert parse_flashcards('{"items": [{"question": "Q", "answer": "A"}]}', 10) == []


@pytest.mark.unit
class TestParseQuiz:

    def _item(self, **overrides) -> dict:
        item = {
            "question": "Capital of France?",
            "options": ["Berlin", "Paris", "Rome", "Madrid"],
            "correctAnswer": 1,
            "explanation": "Paris is the capital.",
        }
        item.update(overrides)
        return item

    def _raw(self, *items) -> str:
        import json
        return json.dumps({"questions": list(items)})

    def test_valid_question(self):
        quiz = parse_quiz(self._raw(self._item()), 5)
        assert len(quiz) == 1
        assert quiz[0].correct_answer == 1
        assert quiz[0].options[1] == "Paris"
        assert quiz[0].explanation == "Paris is the capital."

    def test_quiz_envelope_key(self):
        import json
        raw = json.dumps({"quiz": [self._item()]})
        assert len(parse_quiz(raw, 5)) == 1

    def test_answer_given_as_option_text(self):
        quiz = parse_quiz(self._raw(self._item(correctAnswer="paris")), 5)
        assert quiz[0].correct_answer == 1

    def test_answer_given_as_digit_string(self):
        quiz = parse_quiz(self._raw(self._item(correctAnswer="2")), 5)
        assert quiz[0].correct_answer == 2

    def test_snake_case_answer_key(self):
        item = self._item()
        item["correct_answer"] = item.pop("correctAnswer")
        assert parse_quiz(self._raw(item), 5)[0].correct_answer == 1

    @pytest.mark.parametrize("answer", [4, -1, True, None, "London", 1.5])
    def test_out_of_range_or_unknown_answer_is_dropped(self, answer):
        assert parse_quiz(self._raw(self._item(correctAnswer=answer)), 5) == []

    @pytest.mark.parametrize("options", [["Only one"], [], ["a", "b", "c", "d", "e", "f", "g"], ["a", " "]])
    def test_bad_option_counts_are_dropped(self, options):
        assert parse_quiz(self._raw(self._item(options=options, correctAnswer=0)), 5) == []

    def test_missing_explanation_is_none(self):
        item = self._item()
        del item["explanation"]
        assert parse_quiz(self._raw(item), 5)[0].explanation is None

    def test_truncated_to_count(self):
        items = [self._item(question=f"Q{i}") for i in range(8)]
        assert [q.question for q in parse_quiz(self._raw(*items), 5)] == [f"Q{i}" for i in range(5)]
