import os
from dotenv import load_dotenv

# Load .env when running locally
load_dotenv()

class Settings:
    # ─────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR", "logs")

    # ─────────────────────────────────────────────
    # NMF model
    # ─────────────────────────────────────────────
    NMF_FACTORS = int(os.getenv("NMF_FACTORS", 10))
    NMF_ITERATIONS = int(os.getenv("NMF_ITERATIONS", 100))
    NMF_INIT_VALUE = float(os.getenv("NMF_INIT_VALUE", 0.01))
    NMF_EPSILON = float(os.getenv("NMF_EPSILON", 1e-9))

    # "sparse" (observed entries only) or "dense" (full matrix products)
    NMF_STRATEGY = os.getenv("NMF_STRATEGY", "sparse").lower()

    # Early stop when the loss improves by less than this; 0 disables it
    NMF_TOLERANCE = float(os.getenv("NMF_TOLERANCE", 1e-5))

    # ─────────────────────────────────────────────
    # Evaluation split
    # ─────────────────────────────────────────────
    NMF_TEST_RATIO = float(os.getenv("NMF_TEST_RATIO", 0.2))
    NMF_RANDOM_STATE = int(os.getenv("NMF_RANDOM_STATE", 42))

# IMPORTANT: this is what the build script imports
settings = Settings()
