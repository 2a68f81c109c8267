"""
Prompt templates for the study generators.

Templates are plain str.format() strings; the only placeholders are
{content}, {count}, {question}, {previous}, {correct_answer} and
{user_answer}.
"""

from __future__ import annotations

SUMMARY_SYSTEM = (
    "You are an expert at creating concise, comprehensive summaries of educational "
    "content. Create a well-structured summary that captures all key concepts and "
    "main points."
)
SUMMARY_USER = "Please create a comprehensive summary of the following content:\n\n{content}"

NOTES_SYSTEM = (
    "You are an expert at creating detailed study notes. Organize the content into "
    "clear sections with headings, bullet points, and key concepts highlighted."
)
NOTES_USER = "Please create detailed study notes from the following content:\n\n{content}"

FLASHCARDS_SYSTEM = (
    "You are an expert at creating educational flashcards. Generate exactly {count} "
    "flashcards with clear questions and detailed answers. Return the response as a "
    'JSON object with a "flashcards" array of objects with "question" and "answer" '
    "fields."
)
FLASHCARDS_USER = "Please create {count} flashcards from the following content:\n\n{content}"

QUIZ_SYSTEM = (
    "You are an expert at creating quiz questions. Generate exactly {count} "
    "multiple-choice questions with 4 options each. Return the response as a JSON "
    'object with a "questions" array. Each question should have "question", '
    '"options" (array of 4 strings), "correctAnswer" (0-3 index), and "explanation" '
    "fields."
)
QUIZ_USER = "Please create {count} quiz questions from the following content:\n\n{content}"
QUIZ_AVOID = (
    "\n\nThe following questions were already asked. Write new questions that cover "
    "different concepts and do not repeat them:\n{previous}"
)

ANSWER_SYSTEM = (
    "You are a helpful study assistant. Answer questions based on the provided "
    "content accurately and concisely."
)
ANSWER_USER = (
    "Based on the following content, please answer this question:\n\n"
    "Content:\n{content}\n\nQuestion: {question}"
)
ANSWER_FALLBACK = "I apologize, but I could not generate an answer."

VERIFY_SYSTEM = (
    "You are a fair study tutor grading flashcard answers. Accept answers that "
    "capture the key idea of the reference answer even if worded differently. "
    'Respond with a JSON object with "isCorrect" (boolean) and "feedback" (one or '
    "two encouraging sentences) fields."
)
VERIFY_USER = (
    "Question: {question}\n\nReference answer: {correct_answer}\n\n"
    "Student answer: {user_answer}"
)
