"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BASE_DIR / "uploads")))

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-oss:20b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
VALID_MODELS = [
    m.strip()
    for m in os.getenv(
        "VALID_MODELS", "gpt-oss:20b,gemma3:12b,gemma3:4b,llama3.2:3b"
    ).split(",")
    if m.strip()
]
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "120.0"))

# Chunking: "sentence" packs sentences up to CHUNK_SIZE characters,
# "words" slides a CHUNK_WORDS window with CHUNK_OVERLAP words of overlap
CHUNK_POLICY = os.getenv("CHUNK_POLICY", "sentence")
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_WORDS = int(os.getenv("CHUNK_WORDS", "500"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "50"))

# Retrieval and prompting
MAX_CONTEXT_CHUNKS = int(os.getenv("MAX_CONTEXT_CHUNKS", "5"))
PROMPT_STYLE = os.getenv("PROMPT_STYLE", "full")  # "full" or "basic"
PROMPT_HISTORY_MESSAGES = int(os.getenv("PROMPT_HISTORY_MESSAGES", "6"))
SOURCE_PREVIEW_CHARS = int(os.getenv("SOURCE_PREVIEW_CHARS", "150"))
MAX_QUESTION_LENGTH = int(os.getenv("MAX_QUESTION_LENGTH", "1000"))

# Vector storage: "json", "faiss" or "chroma"
VECTOR_BACKEND = os.getenv("VECTOR_BACKEND", "json")
VECTOR_DB_PATH = DATA_DIR / "vector-db.json"
FAISS_INDEX_DIR = DATA_DIR / "faiss"
CHROMA_HOST = os.getenv("CHROMA_HOST", "localhost")
CHROMA_PORT = int(os.getenv("CHROMA_PORT", "8000"))
CHROMA_COLLECTION = os.getenv("CHROMA_COLLECTION", "documents")

# Uploads
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(50 * 1024 * 1024)))  # 50MB
MAX_FILES_PER_UPLOAD = int(os.getenv("MAX_FILES_PER_UPLOAD", "10"))
ALLOWED_EXTENSIONS = (".txt", ".md", ".pdf", ".docx")
SAVE_UPLOADS = os.getenv("SAVE_UPLOADS", "true").lower() == "true"

# Conversation history
MAX_CHAT_MESSAGES = int(os.getenv("MAX_CHAT_MESSAGES", "100"))

# Rate limiting (seconds / requests per window)
CHAT_RATE_WINDOW = float(os.getenv("CHAT_RATE_WINDOW", "60"))
CHAT_RATE_MAX = int(os.getenv("CHAT_RATE_MAX", "20"))
UPLOAD_RATE_WINDOW = float(os.getenv("UPLOAD_RATE_WINDOW", str(15 * 60)))
UPLOAD_RATE_MAX = int(os.getenv("UPLOAD_RATE_MAX", "10"))
RATE_LIMIT_CLEANUP_INTERVAL = float(os.getenv("RATE_LIMIT_CLEANUP_INTERVAL", "300"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
