from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from typing import Optional

# Import our components
from jobboard.core.config import get_settings
from jobboard.core.errors import InputValidationError
from jobboard.core.storage import close_storage, create_storage
from jobboard.api import websocket
from jobboard.api.websocket import manager
from jobboard.models.base import CamelModel
from jobboard.models.conversation import ConversationCreate, MessageCreate
from jobboard.models.job import JobCreate
from jobboard.models.payment import PaymentCreate
from jobboard.models.profile import PaymentMethodCreate, ProfileUpdate
from jobboard.services.store import AppStore

settings = get_settings()

# Setup logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger("JobBoardMain")


@asynccontextmanager
async def lifespan(app: FastAPI):
    storage = await create_storage(settings)
    store = AppStore(storage, settings=settings)
    await store.load()
    unsubscribe = store.notifications.subscribe(manager.on_notification)
    app.state.store = store
    logger.info("Restaurant Jobs state service: ONLINE.")
    yield
    unsubscribe()
    await store.close()
    await close_storage(storage)


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="State service for the Restaurant Jobs board",
    lifespan=lifespan
)

# CORS - Open wide for the frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include the WebSocket router
app.include_router(websocket.router)


def get_store(request: Request) -> AppStore:
    return request.app.state.store


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError):
    return JSONResponse(status_code=422, content=exc.to_dict())


@app.get("/")
def read_root():
    return {
        "status": "active",
        "service": settings.PROJECT_NAME,
        "storage": settings.STORAGE_BACKEND,
    }


@app.get("/state")
async def get_state(store: AppStore = Depends(get_store)):
    """Everything a screen needs to render."""
    return store.snapshot()


@app.get("/stats")
async def get_stats(store: AppStore = Depends(get_store)):
    return store.stats().to_json_dict()


# --- Jobs ---

@app.get("/jobs")
async def list_jobs(store: AppStore = Depends(get_store)):
    jobs = [job.to_json_dict() for job in store.jobs]
    return {"jobs": jobs, "count": len(jobs)}


@app.post("/jobs", status_code=201)
async def create_job(request: JobCreate, store: AppStore = Depends(get_store)):
    return store.create_job(request).to_json_dict()


@app.get("/jobs/{job_id}")
async def get_job(job_id: str, store: AppStore = Depends(get_store)):
    job = store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_json_dict()


@app.post("/jobs/{job_id}/messages")
async def send_job_message(job_id: str, request: MessageCreate, store: AppStore = Depends(get_store)):
    if store.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    entry = store.send_job_message(job_id, request.text)
    return {"sent": entry is not None, "message": entry}


# --- Profile ---

class CommentRequest(CamelModel):
    text: str = ""


@app.get("/profile")
async def get_profile(store: AppStore = Depends(get_store)):
    return store.profile.to_json_dict()


@app.patch("/profile")
async def update_profile(request: ProfileUpdate, store: AppStore = Depends(get_store)):
    return store.update_profile(request).to_json_dict()


@app.post("/profile/comments", status_code=201)
async def add_comment(request: CommentRequest, store: AppStore = Depends(get_store)):
    comments = store.add_profile_comment(request.text)
    return {"comments": comments, "count": len(comments)}


@app.post("/profile/payment-methods", status_code=201)
async def add_payment_method(request: PaymentMethodCreate, store: AppStore = Depends(get_store)):
    return store.add_payment_method(request).to_json_dict()


# --- Payments ---

@app.get("/payments")
async def list_payments(store: AppStore = Depends(get_store)):
    payments = [p.to_json_dict() for p in store.payments]
    return {"payments": payments, "count": len(payments)}


@app.post("/payments", status_code=202)
async def process_payment(request: PaymentCreate, store: AppStore = Depends(get_store)):
    return store.process_payment(request).to_json_dict()


@app.get("/payments/summary")
async def payment_summary(store: AppStore = Depends(get_store)):
    return store.payment_summary().to_json_dict()


# --- Conversations ---

@app.get("/conversations")
async def list_conversations(search: Optional[str] = None, store: AppStore = Depends(get_store)):
    conversations = [c.to_json_dict() for c in store.search_conversations(search or "")]
    return {"conversations": conversations, "count": len(conversations)}


@app.post("/conversations", status_code=201)
async def start_conversation(request: ConversationCreate, store: AppStore = Depends(get_store)):
    conversation = store.start_conversation(
        recipient=request.recipient,
        subject=request.subject,
        job_id=request.job_id,
        message=request.message,
    )
    return conversation.to_json_dict()


@app.post("/conversations/{conversation_id}/messages")
async def send_message(conversation_id: str, request: MessageCreate, store: AppStore = Depends(get_store)):
    # Blank text and unknown conversations are silently ignored
    message = store.send_message(conversation_id, request.text)
    return {"sent": message is not None, "message": message.to_json_dict() if message else None}


@app.post("/conversations/{conversation_id}/read")
async def mark_read(conversation_id: str, store: AppStore = Depends(get_store)):
    if not store.mark_conversation_read(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return store.get_conversation(conversation_id).to_json_dict()


@app.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, store: AppStore = Depends(get_store)):
    if not store.delete_conversation(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"success": True}


# --- Theme & welcome ---

class WelcomeRequest(CamelModel):
    enable_dark_mode: bool = False


@app.post("/theme/toggle")
async def toggle_theme(store: AppStore = Depends(get_store)):
    return {"darkMode": store.toggle_theme()}


@app.post("/welcome/dismiss")
async def dismiss_welcome(request: Optional[WelcomeRequest] = None, store: AppStore = Depends(get_store)):
    store.dismiss_welcome(enable_dark_mode=bool(request and request.enable_dark_mode))
    return {"showWelcome": store.show_welcome, "darkMode": store.dark_mode}


def run():
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
