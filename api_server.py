"""
FastAPI Backend Server

Exposes the NimbusERP assistant as REST API endpoints for the web UI:
chat, knowledge-base search, role metadata, chat history and the
speech/avatar helpers used by the front end.
"""

import asyncio
import io
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from nimbus_assistant import __version__
from nimbus_assistant.assistant import AssistantPipeline, create_pipeline
from nimbus_assistant.config import settings
from nimbus_assistant.logger import get_logger, init_logging
from nimbus_assistant.messages import msg
from nimbus_assistant.roles import ROLE_PROFILES, Role, get_profile
from nimbus_assistant.store import SessionStore

logger = get_logger(__name__)


# Pydantic models for API
class ChatRequest(BaseModel):
    message: Optional[str] = None
    role: Optional[str] = None
    session_id: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    source: str
    confidence: float
    role: str


class SearchRequest(BaseModel):
    query: str = Field(default="", max_length=2000)


class SearchResponse(BaseModel):
    matched: bool
    response: Optional[str] = None
    source: Optional[str] = None
    confidence: float
    confidence_percent: int


class StatsResponse(BaseModel):
    collections: Dict[str, int]
    thresholds: Dict[str, float]
    environment: str
    version: str


class SessionRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    title: str = Field(default="New conversation", max_length=255)


class SessionModel(BaseModel):
    id: str
    user_id: str
    title: str
    created_at: str
    updated_at: str


class MessageModel(BaseModel):
    id: Optional[str] = None
    session_id: str
    message_type: str
    content: str
    source: Optional[str] = None
    confidence: Optional[float] = None
    created_at: Optional[str] = None


class TTSRequest(BaseModel):
    text: Optional[str] = None
    voice: Optional[str] = None


class AvatarRequest(BaseModel):
    text: Optional[str] = None
    avatar_style: str = "default"


AVATAR_URLS = {
    "default": "/avatars/default.jpg",
    "professional": "/avatars/professional.jpg",
    "friendly": "/avatars/friendly.jpg",
    "technical": "/avatars/technical.jpg",
}


# Global pipeline instance
pipeline: Optional[AssistantPipeline] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup resources."""
    global pipeline

    init_logging()
    # Malformed datasets stop startup here rather than failing per request
    pipeline = create_pipeline()
    logger.info(f"Assistant ready: {pipeline.knowledge_base.dataset.counts()}")

    yield

    pipeline = None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Simple in-memory rate limiting middleware.
    Limits requests per IP address within a time window.
    """

    def __init__(self, app, requests_limit: int = 60, window_seconds: int = 60):
        super().__init__(app)
        self.requests_limit = requests_limit
        self.window_seconds = window_seconds
        self.request_counts: Dict[str, list] = defaultdict(list)
        self._last_sweep = 0.0

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/api/health":
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()

        current_time = time.time()
        cutoff_time = current_time - self.window_seconds

        if current_time - self._last_sweep >= self.window_seconds:
            self._prune(cutoff_time)
            self._last_sweep = current_time

        self.request_counts[client_ip] = [
            ts for ts in self.request_counts[client_ip] if ts > cutoff_time
        ]

        if len(self.request_counts[client_ip]) >= self.requests_limit:
            return JSONResponse(
                status_code=429,
                content={
                    "detail": msg("error.rate_limited"),
                    "retry_after": self.window_seconds
                },
                headers={"Retry-After": str(self.window_seconds)}
            )

        self.request_counts[client_ip].append(current_time)

        return await call_next(request)

    def _prune(self, cutoff_time: float) -> None:
        """Forget clients with no request newer than cutoff_time."""
        stale = [
            ip for ip, stamps in self.request_counts.items()
            if not stamps or stamps[-1] <= cutoff_time
        ]
        for ip in stale:
            del self.request_counts[ip]


app = FastAPI(
    title="NimbusERP Assistant API",
    description="Knowledge-base first chat assistant for NimbusERP",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    RateLimitMiddleware,
    requests_limit=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_pipeline() -> AssistantPipeline:
    """Get the pipeline instance."""
    if pipeline is None:
        raise HTTPException(status_code=503, detail=msg("error.assistant_not_ready"))
    return pipeline


def get_store() -> SessionStore:
    store = get_pipeline().store
    if store is None:
        raise HTTPException(status_code=404, detail=msg("error.session_store_disabled"))
    return store


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/welcome")
async def welcome_message(role: Optional[str] = None):
    """Return a short welcome message for the chat window."""
    return {"message": msg("welcome.message", role)}


@app.get("/api/roles")
async def list_roles():
    """Role profiles for the role picker."""
    return {"roles": [profile.to_dict() for profile in ROLE_PROFILES.values()]}


@app.post("/api/chat", response_model=ChatResponse)
async def chat(request: ChatRequest):
    """Answer a message from the knowledge base, falling back to the AI service."""
    if not request.message or not request.message.strip() or not request.role:
        return JSONResponse(
            status_code=400,
            content={
                "response": msg("error.message_required"),
                "source": "System",
                "confidence": 0,
                "role": "system",
            },
        )

    pipe = get_pipeline()
    try:
        answer = await pipe.respond(request.message, role=request.role, session_id=request.session_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ChatResponse(
        response=answer.response,
        source=answer.source,
        confidence=answer.confidence,
        role=answer.role.value,
    )


@app.post("/api/knowledge/search", response_model=SearchResponse)
async def search_knowledge(request: SearchRequest):
    """Knowledge-base lookup only; never calls the AI service."""
    result = get_pipeline().search(request.query)
    return SearchResponse(
        matched=result.matched,
        response=result.response_text,
        source=result.source,
        confidence=result.confidence,
        confidence_percent=result.confidence_percent,
    )


@app.get("/api/stats", response_model=StatsResponse)
async def get_stats():
    """Dataset sizes and matcher thresholds."""
    stats = get_pipeline().knowledge_base.stats()
    return StatsResponse(
        collections=stats["collections"],
        thresholds=stats["thresholds"],
        environment=settings.app_env,
        version=__version__,
    )


@app.post("/api/sessions", response_model=SessionModel)
async def create_session(request: SessionRequest):
    """Start a new chat session for a user."""
    store = get_store()
    try:
        session = await asyncio.to_thread(store.create_chat_session, request.user_id, request.title)
    except SQLAlchemyError as e:
        logger.error(f"Session create error: {e}")
        raise HTTPException(status_code=500, detail="Could not create chat session")
    return SessionModel(**session.to_dict())


@app.get("/api/sessions", response_model=List[SessionModel])
async def list_sessions(user_id: str = Query(..., min_length=1)):
    """A user's sessions, most recent first."""
    store = get_store()
    try:
        sessions = await asyncio.to_thread(store.get_user_sessions, user_id)
    except SQLAlchemyError as e:
        logger.error(f"Session list error: {e}")
        raise HTTPException(status_code=500, detail="Could not load chat sessions")
    return [SessionModel(**s.to_dict()) for s in sessions]


@app.get("/api/sessions/{session_id}/messages", response_model=List[MessageModel])
async def session_messages(session_id: str):
    """Full message history of a session, oldest first."""
    store = get_store()
    try:
        session = await asyncio.to_thread(store.get_session, session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=msg("error.session_not_found"))
        history = await asyncio.to_thread(store.get_chat_history, session_id)
    except SQLAlchemyError as e:
        logger.error(f"History error: {e}")
        raise HTTPException(status_code=500, detail="Could not load chat history")
    return [MessageModel(**m.to_dict()) for m in history]


@app.post("/api/tts")
async def text_to_speech(request: TTSRequest):
    """
    Convert text to speech.

    With Azure Speech configured the MP3 audio is returned; otherwise the
    text is echoed back for the browser's own speech synthesis.
    """
    if not request.text or not request.text.strip():
        raise HTTPException(status_code=400, detail=msg("error.text_required"))

    if not settings.speech.is_configured:
        return {
            "success": True,
            "message": "Text processed for speech synthesis",
            "text": request.text,
            "voice": request.voice or "en-US",
        }

    try:
        import azure.cognitiveservices.speech as speechsdk

        speech_config = speechsdk.SpeechConfig(
            subscription=settings.speech.api_key,
            region=settings.speech.region
        )
        speech_config.speech_synthesis_voice_name = request.voice or settings.speech.voice_name
        speech_config.set_speech_synthesis_output_format(
            speechsdk.SpeechSynthesisOutputFormat.Audio16Khz32KBitRateMonoMp3
        )

        synthesizer = speechsdk.SpeechSynthesizer(
            speech_config=speech_config,
            audio_config=None  # No audio output, we capture the stream
        )

        result = await asyncio.to_thread(
            lambda: synthesizer.speak_text_async(request.text).get()
        )

        if result.reason == speechsdk.ResultReason.SynthesizingAudioCompleted:  # type: ignore[union-attr]
            audio_data = result.audio_data  # type: ignore[union-attr]
            return StreamingResponse(
                io.BytesIO(audio_data),
                media_type="audio/mpeg",
                headers={
                    "Content-Disposition": "inline",
                    "Content-Length": str(len(audio_data)),
                }
            )
        if result.reason == speechsdk.ResultReason.Canceled:  # type: ignore[union-attr]
            cancellation = result.cancellation_details  # type: ignore[union-attr]
            logger.error(f"TTS canceled: {cancellation.error_details}")
            raise HTTPException(status_code=500, detail=f"TTS failed: {cancellation.reason}")
        raise HTTPException(status_code=500, detail=msg("error.tts_failed"))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"TTS error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/avatar")
async def avatar(request: AvatarRequest):
    """Avatar image and a rough speaking duration for the reply text."""
    if not request.text or not request.text.strip():
        raise HTTPException(status_code=400, detail=msg("error.text_required"))

    return {
        "success": True,
        "message": "Avatar animation processed",
        "avatar_url": AVATAR_URLS.get(request.avatar_style, AVATAR_URLS["default"]),
        "speaking_duration": max(2000, len(request.text) * 50),
    }


@app.get("/api/roles/{role}")
async def role_detail(role: str):
    """One role profile; unknown roles get 404."""
    key = role.strip().lower()
    for candidate in Role:
        if key in (candidate.value, ROLE_PROFILES[candidate].title.lower()):
            return get_profile(candidate).to_dict()
    raise HTTPException(status_code=404, detail=f"Unknown role '{role}'")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api_server:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
    )
