"""
Main application entry point for the market news tracker
"""
import logging

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from backend.api.routes import app  # noqa: E402


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("Market News Tracker v0.1")
    print("=" * 60)
    print("Starting server...")
    print("API Documentation: http://localhost:8000/docs")
    print("=" * 60)

    uvicorn.run(
        "main:app",
        host="127.0.0.1",  # Use localhost explicitly to avoid IPv6 issues
        port=8000,
        reload=True,
        log_level="info"
    )
