import json
import logging
from functools import partial

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from config import Settings
from gemini import GeminiMapsClient
from graph import build_config, get_status_reply, graph
from issues import IssueLookupError, build_issue_store
from logging_config import setup_logging
from models import (
    ChatResponse,
    CreateSessionRequest,
    IssueStatus,
    MessageView,
    SessionView,
    StatusRequest,
    SubmitRequest,
    SummaryResponse,
)
from rendering import link_class_for, render_html
from session import FALLBACK_MESSAGE, ChatSession, SessionRegistry
from summary import SUMMARY_FALLBACK, summarize_resolved_issues

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Civic Tracker API",
        description="AI-powered complaint status assistant",
        version="0.1.0",
    )

    # Enable CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.issue_store = build_issue_store(settings.issue_api_url)
    app.state.generator = GeminiMapsClient(settings)
    app.state.sessions = SessionRegistry(
        max_sessions=settings.session_max_count,
        idle_ttl_seconds=settings.session_idle_ttl_seconds,
    )

    logger.info(
        "API server configured",
        extra={
            "model": settings.gemini_model,
            "timeout_seconds": settings.llm_timeout_seconds,
            "api_key_configured": bool(settings.google_api_key),
        },
    )

    register_routes(app)
    return app


def _responder(request: Request):
    return partial(
        get_status_reply,
        issue_store=request.app.state.issue_store,
        generator=request.app.state.generator,
    )


def _session_view(session: ChatSession, accepted: bool | None = None) -> SessionView:
    return SessionView(
        session_id=session.id,
        busy=session.busy,
        messages=[
            MessageView(
                sender=message.sender,
                text=message.text,
                html=render_html(message.text, link_class_for(message.sender)),
            )
            for message in session.messages
        ],
        accepted=accepted,
    )


def _get_session(request: Request, session_id: str) -> ChatSession:
    session = request.app.state.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def register_routes(app: FastAPI):
    @app.get("/")
    async def root():
        return {"message": "Hello from Civic Tracker API"}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/sessions", response_model=SessionView)
    async def create_session(body: CreateSessionRequest, request: Request):
        """Start a chat session, capturing the browser location once."""
        if body.location is None:
            if body.location_error:
                logger.warning(
                    f"Error getting location: {body.location_error}. Proceeding without it."
                )
            else:
                logger.info("No location provided; proceeding without location bias")

        session = request.app.state.sessions.create(_responder(request), body.location)
        logger.info("Created chat session", extra={"session_id": session.id})
        return _session_view(session)

    @app.get("/sessions/{session_id}", response_model=SessionView)
    async def get_session(session_id: str, request: Request):
        return _session_view(_get_session(request, session_id))

    @app.delete("/sessions/{session_id}", status_code=204)
    async def delete_session(session_id: str, request: Request):
        if not request.app.state.sessions.remove(session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        logger.info("Closed chat session", extra={"session_id": session_id})
        return Response(status_code=204)

    @app.post("/sessions/{session_id}/messages", response_model=SessionView)
    async def submit_message(session_id: str, body: SubmitRequest, request: Request):
        """Submit a complaint ID; rejected while a previous one is in flight."""
        session = _get_session(request, session_id)
        reply = await session.submit(body.text)
        return _session_view(session, accepted=reply is not None)

    @app.post("/chat", response_model=ChatResponse)
    async def chat(body: StatusRequest, request: Request):
        """Stateless status lookup (non-streaming)."""
        issue_id = body.issue_id.strip()
        if not issue_id:
            raise HTTPException(status_code=422, detail="issue_id must not be blank")

        try:
            response = await _responder(request)(issue_id, body.location)
        except Exception:
            logger.exception("Status lookup failed", extra={"issue_id": issue_id})
            response = FALLBACK_MESSAGE
        return ChatResponse(response=response)

    @app.post("/chat/stream")
    async def chat_stream(body: StatusRequest, request: Request):
        """Streaming status lookup - streams graph progress and the final reply."""
        issue_id = body.issue_id.strip()
        if not issue_id:
            raise HTTPException(status_code=422, detail="issue_id must not be blank")

        config = build_config(request.app.state.issue_store, request.app.state.generator)

        async def event_generator():
            reply = None
            try:
                async for mode, chunk in graph.astream(
                    {"issue_id": issue_id, "user_location": body.location},
                    config=config,
                    stream_mode=["updates", "custom"],
                ):
                    if mode == "custom":
                        # Custom events (like node_start) pass through directly
                        yield f"data: {json.dumps(chunk)}\n\n"

                    elif mode == "updates":
                        # chunk is a dict: {node_name: {state_updates}}
                        for node_name, state_update in chunk.items():
                            if state_update and "response" in state_update:
                                reply = state_update["response"]
                            yield f"data: {json.dumps({'type': 'node_complete', 'node': node_name})}\n\n"
            except Exception:
                logger.exception("Status lookup failed", extra={"issue_id": issue_id})
                reply = None

            yield f"data: {json.dumps({'type': 'reply', 'content': reply or FALLBACK_MESSAGE})}\n\n"
            # Signal stream completion
            yield f"data: {json.dumps({'type': 'done'})}\n\n"

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )

    @app.get("/issues/resolved/summary", response_model=SummaryResponse)
    async def resolved_summary(request: Request):
        try:
            issues = await run_in_threadpool(
                request.app.state.issue_store.list_issues, IssueStatus.RESOLVED
            )
        except IssueLookupError:
            logger.exception("Failed to list resolved issues")
            return SummaryResponse(summary=SUMMARY_FALLBACK)

        summary = await summarize_resolved_issues(issues, request.app.state.generator)
        return SummaryResponse(summary=summary)


app = create_app()
