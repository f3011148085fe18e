"""Pydantic request/response schemas for the Quizling API."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ---- QAPair ----

class QAPairSchema(BaseModel):
    question: str
    options: List[str] = Field(..., min_length=4, max_length=4)
    correctAnswer: int = Field(..., ge=0, le=3)
    explanation: str = ""
    wrongAnswerExplanations: List[str] = Field(..., min_length=3, max_length=3)
    page_range: str = ""
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)


# ---- Chunks ----

class ChunkSchema(BaseModel):
    text: str
    pageRange: str
    startPage: int
    endPage: int
    index: int


class FileMetadata(BaseModel):
    fileName: str
    fileSize: int
    fileType: str
    totalChunks: Optional[int] = None
    totalQAPairs: Optional[int] = None
    uniqueQAPairs: Optional[int] = None
    processingMethod: Optional[str] = None


class ExtractChunksResponse(BaseModel):
    chunks: List[ChunkSchema]
    metadata: FileMetadata


class ProcessChunkRequest(BaseModel):
    text: str
    pageRange: str
    chunkIndex: int = Field(default=0, ge=0)
    totalChunks: int = Field(default=1, ge=1)


class ProcessChunkResponse(BaseModel):
    qaPairs: List[QAPairSchema]
    chunkIndex: int
    totalChunks: int
    pageRange: str
    qaPairsCount: int


# ---- Documents ----

class ProcessPdfResponse(BaseModel):
    qaPairs: List[QAPairSchema]
    metadata: FileMetadata


class ProcessImageResponse(BaseModel):
    qaPairs: List[QAPairSchema]
    metadata: FileMetadata
    ocrText: Optional[str] = None


class FileOutcomeSchema(BaseModel):
    fileName: str
    success: bool
    chunks: int = 0
    qaPairs: int = 0
    processingMethod: Optional[str] = None
    error: Optional[str] = None


class ProcessFilesResponse(BaseModel):
    qaPairs: List[QAPairSchema]
    files: List[FileOutcomeSchema]
    totalChunks: int
    totalQAPairs: int
    uniqueQAPairs: int


# ---- Chat ----

class ChatMessage(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., max_length=8000)
    qaPairs: List[QAPairSchema] = Field(default_factory=list)
    context: Optional[str] = None
    conversationHistory: List[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    response: str


# ---- Quiz ----

class QuizGradeRequest(BaseModel):
    qaPairs: List[QAPairSchema] = Field(..., min_length=1)
    answers: Dict[int, int] = Field(default_factory=dict)


class QuizResultRow(BaseModel):
    index: int
    selected: Optional[int] = None
    correct: int
    isCorrect: bool
    explanation: str
    wrongAnswerExplanation: Optional[str] = None


class QuizGradeResponse(BaseModel):
    totalQuestions: int
    correctAnswers: int
    score: int
    results: List[QuizResultRow]


# ---- Jobs ----

class JobStartResponse(BaseModel):
    job_id: str


class JobStatusResponse(BaseModel):
    job_id: str
    filename: str
    status: str
    stage: str
    percent: int
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


# ---- Capabilities ----

class CapabilitiesResponse(BaseModel):
    pdf_qa_extraction: bool
    document_ai_ocr: bool
    vision: bool
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
