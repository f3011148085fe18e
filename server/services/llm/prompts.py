"""Fixed instructional prompts for question generation and chat."""

from typing import List, Optional, Sequence

QA_OUTPUT_FORMAT = """OUTPUT FORMAT (JSON):
{
  "qa_pairs": [
    {
      "question": "What is the main concept discussed in this section?",
      "options": ["Correct answer", "Plausible wrong answer 1", "Plausible wrong answer 2", "Plausible wrong answer 3"],
      "correctAnswer": 0,
      "explanation": "Explanation for why option A is correct based on the text",
      "wrongAnswerExplanations": ["Why option B is wrong", "Why option C is wrong", "Why option D is wrong"],
      "confidence": 0.95
    }
  ]
}"""

_MCQ_INSTRUCTIONS = """INSTRUCTIONS:
1. Create multiple choice questions based on the content
2. Each question must have exactly 4 options (A, B, C, D)
3. One option is correct, three are wrong but plausible
4. Provide explanation for why the correct answer is right
5. Provide explanations for why each wrong answer is incorrect
6. Focus on key concepts, definitions, examples, and important facts"""

IMAGE_SYSTEM_PROMPT = (
    "You are analyzing text content from documents. "
    "Create multiple choice questions with 4 options each from the following text."
)

VISION_SYSTEM_PROMPT = (
    "You are analyzing document/textbook images. "
    "Create multiple choice questions from the educational content you can see in the image."
)


def chunk_qa_prompt(text: str) -> str:
    """Prompt for one page-bounded chunk of a PDF."""
    return f"""You are analyzing a syllabus/textbook content. Create multiple choice questions with exactly 4 options from the following text.

TEXT TO ANALYZE:
{text}

{_MCQ_INSTRUCTIONS}
7. If this chunk contains overlap pages (marked as OVERLAP), only use content from those pages if it's relevant to the main content in this chunk

{QA_OUTPUT_FORMAT}

Only return valid JSON. Extract 3-10 multiple choice Q&A pairs if available."""


def ocr_text_qa_prompt(text: str) -> str:
    """Prompt for text recovered from an image by OCR."""
    return f"""You are analyzing a document/textbook content. Create multiple choice questions with exactly 4 options from the following text.

TEXT TO ANALYZE:
{text}

{_MCQ_INSTRUCTIONS}

{QA_OUTPUT_FORMAT}

Extract 3-10 multiple choice Q&A pairs if available. Return ONLY the JSON object with no additional text."""


def vision_qa_prompt() -> str:
    """Prompt sent alongside an embedded image."""
    return f"""Analyze this image and create multiple choice questions from any educational content you can see.

{_MCQ_INSTRUCTIONS}
7. Include practice questions, review questions and examples visible in the image

{QA_OUTPUT_FORMAT}

Extract 3-15 multiple choice Q&A pairs if available. Return ONLY the JSON object with no additional text."""


CHAT_GUIDELINES = """You are a helpful learning assistant designed to help students understand educational material. You have access to Q&A pairs from learning content and should use this information to provide accurate, helpful responses.

Guidelines:
1. Be friendly, encouraging, and supportive
2. Use the provided Q&A content to answer questions accurately
3. If asked about concepts covered in the Q&A pairs, reference the specific questions and explanations
4. Break down complex concepts into simpler terms
5. Provide examples and analogies when helpful
6. If a question is not covered in the available content, be honest about limitations but try to provide general guidance
7. Encourage active learning and critical thinking
8. Keep responses concise but informative (aim for 2-3 sentences for simple questions, more for complex explanations)"""


def option_letter(index: int) -> str:
    return chr(ord("A") + index)


def chat_system_prompt(
    qa_context: Sequence[str],
    history: Sequence[str],
    context: Optional[str] = None,
) -> str:
    """
    Assemble the chat system instruction.

    qa_context and history are pre-rendered lines; empty sections are omitted.
    """
    parts: List[str] = [CHAT_GUIDELINES, ""]
    if context:
        parts.append(f"Additional Context: {context}")
    if qa_context:
        parts.append("\n\nAvailable Q&A Content:\n" + "\n\n".join(qa_context))
    if history:
        parts.append("\n\nRecent Conversation:\n" + "\n".join(history))
    return "\n".join(parts).rstrip()
