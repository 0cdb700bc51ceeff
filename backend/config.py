import os

from dotenv import load_dotenv

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "Plant Disease Detector")
LIVENESS_MESSAGE = "🌿 Plant Disease Detector Backend is Running!"

# Upstream model
HF_TOKEN = os.getenv("HF_TOKEN", "")
MODEL_URL = os.getenv(
    "MODEL_URL",
    "https://router.huggingface.co/hf-inference/models/wambugu71/crop_leaf_diseases_vit",
)
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "15"))
MODEL_MAX_RETRIES = int(os.getenv("MODEL_MAX_RETRIES", "0"))
MODEL_RETRY_BACKOFF = float(os.getenv("MODEL_RETRY_BACKOFF", "0.5"))

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5000"))
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
CORS_PATTERNS = [o.strip() for o in CORS_ORIGINS if o.strip()]
