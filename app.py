"""
app.py - FastAPI Application
Exposes REST API endpoints for CT scan analysis, the medical chatbot and PDF reports

Setup Instructions:
1. Install dependencies: pip install -e .
2. Create a .env file in the project root with: GROQ_API_KEY=your_key_here
3. Run the server: python app.py
4. Point the frontend at http://localhost:5001/api
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from analyzer import AnalyzerNotConfigured, NoduleAnalyzer
from cascade import CascadeExhaustedError, FailureKind, classify_error
from chatbot import get_rule_based_response
from config import Settings, load_settings
from pdf_report import render_pdf
from uploads import UploadError, list_uploads, remove_upload, save_upload

# Load environment variables from .env file
load_dotenv()

settings = load_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000
RATE_LIMIT_MESSAGE = "Rate limit reached on all AI models. Please wait 60 seconds and try again."

# Initialize FastAPI app
app = FastAPI(title="Pulmonary Nodule Detection API", version="2.0.0")

# Enable CORS for frontend communication
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

settings.upload_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

# Lazy-initialized AI processor (created on first request)
processor = None


class ChatTurn(BaseModel):
    role: str
    text: str = ""


class ChatRequest(BaseModel):
    message: str = ""
    history: List[ChatTurn] = []


def get_settings() -> Settings:
    return settings


def get_processor(current: Settings) -> NoduleAnalyzer:
    """
    Create the analyzer on first use so the app imports without an API key.
    A new analyzer is built when the settings differ from the cached one.
    """
    global processor
    if processor is None or getattr(processor, "settings", current) != current:
        processor = NoduleAnalyzer(current)
    return processor


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def describe_ai_error(error: Exception):
    """
    Map an analysis failure to an HTTP status and a user-facing message

    Returns:
        (status_code, message) tuple
    """
    if isinstance(error, AnalyzerNotConfigured):
        return 503, (
            "AI service not configured. Please add your GROQ_API_KEY to the .env file. "
            "Get a FREE key at https://console.groq.com/keys"
        )
    if isinstance(error, CascadeExhaustedError):
        return 429, RATE_LIMIT_MESSAGE
    if classify_error(error) is FailureKind.TRANSIENT_QUOTA:
        return 429, "AI rate limit reached. Please wait 60 seconds and try again."

    text = str(error).lower()
    if "invalid_api_key" in text or "invalid api key" in text or "401" in text:
        return 401, "Invalid Groq API key. Please check GROQ_API_KEY in the .env file."
    return 500, "Analysis failed. Please try again."


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    return await call_next(request)


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "OK",
        "message": "Pulmonary Nodule Detection API is running",
        "timestamp": now_iso(),
    }


@app.post("/api/predict")
async def predict(image: UploadFile = File(...), current: Settings = Depends(get_settings)):
    """
    Endpoint to analyze an uploaded CT scan image

    Args:
        image: Uploaded image file (PNG or JPEG)

    Returns:
        JSON response with:
        - prediction: Structured diagnostic report
        - imagePath / fileName: Where the scan was stored
        - success: Boolean status

    Raises:
        HTTPException: If the upload is rejected
    """
    contents = await image.read()
    try:
        saved_path = save_upload(
            contents,
            image.filename,
            image.content_type,
            current.upload_dir,
            current.max_upload_bytes,
        )
    except UploadError as e:
        raise HTTPException(status_code=400, detail=str(e))

    analyzed = False
    try:
        prediction = await get_processor(current).analyze_ct_scan(saved_path)
        analyzed = True
    except Exception as e:
        logger.exception("Prediction error: %s", e)
        status_code, message = describe_ai_error(e)
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": "AI Analysis Failed", "message": message},
        )
    finally:
        # Clean up the stored scan when analysis failed
        if not analyzed:
            remove_upload(saved_path)

    logger.info("Analysis complete: %s (%s%% confidence)", prediction["result"], prediction["confidence"])

    return JSONResponse(content={
        "success": True,
        "prediction": prediction,
        "imagePath": f"/uploads/{saved_path.name}",
        "fileName": saved_path.name,
        "uploadedAt": now_iso(),
        "aiEngine": prediction.get("analysisEngine"),
    })


@app.get("/api/predictions")
async def prediction_history(current: Settings = Depends(get_settings)):
    """Previously uploaded scans, newest first"""
    predictions = list_uploads(current.upload_dir)
    return {"success": True, "predictions": predictions, "count": len(predictions)}


@app.post("/api/chatbot")
async def chatbot(chat: ChatRequest, current: Settings = Depends(get_settings)):
    """AI-powered reply to a medical question, with a rule-based fallback"""
    message = chat.message.strip()
    if not message:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "No message provided", "reply": "Please send a message."},
        )
    if len(chat.message) > MAX_MESSAGE_LENGTH:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Message too long",
                "reply": f"Please keep your question under {MAX_MESSAGE_LENGTH} characters.",
            },
        )

    logger.info("Chatbot question: %r", message[:60])

    reply: Optional[str] = None
    engine = "rule-based"
    if current.api_configured:
        history = [{"role": turn.role, "text": turn.text} for turn in chat.history]
        try:
            reply = await get_processor(current).get_chatbot_response(message, history)
            engine = "groq"
        except Exception as e:
            logger.warning("AI chatbot error, falling back to rule-based: %s", e)
    else:
        logger.info("Using rule-based chatbot (no GROQ_API_KEY set)")

    if reply is None:
        reply = get_rule_based_response(message)

    return {"success": True, "reply": reply, "engine": engine, "timestamp": now_iso()}


@app.get("/api/chatbot/info")
async def chatbot_info(current: Settings = Depends(get_settings)):
    configured = current.api_configured
    return {
        "success": True,
        "info": {
            "name": "Medical AI Assistant",
            "version": "2.0.0",
            "engine": f"Groq ({current.chat_models[0]})" if configured else "Rule-based (fallback)",
            "apiConfigured": configured,
            "models": list(current.chat_models),
            "capabilities": [
                "Answer questions about lung nodules",
                "Explain CT scan results",
                "Provide general pulmonary health information",
                "Explain AI detection process",
                "Conversational context awareness",
            ],
        },
    }


@app.post("/api/report/pdf")
def report_pdf(prediction: dict = Body(...)):
    """Render a prediction returned by /api/predict as a PDF download"""
    if "result" not in prediction:
        raise HTTPException(status_code=400, detail="Prediction must include a result")

    pdf = render_pdf(prediction)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="pulmoai-report.pdf"'},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=settings.port, reload=True)
