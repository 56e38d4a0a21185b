"""FastAPI backend for NutriSafe: food risk analysis and daily health tips."""
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from config import CORS_ORIGINS, LOG_LEVEL
from database import db
from modules.genai_advisor import analyze_food, generate_personalized_daily_tips
from modules.profile_gate import INCOMPLETE_PROFILE_MESSAGE, missing_profile_fields
from modules.schemas import AnalyzeFoodRequest

logger = logging.getLogger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AnalysisRequest(BaseModel):
    nutrition: AnalyzeFoodRequest
    profile: dict = {}


class TipsRequest(BaseModel):
    user_id: str
    profile: Optional[dict] = None


@app.get("/health")
async def health():
    return {"status": "ok"}


# =====================================================================
# ANALYSIS ENDPOINTS
# =====================================================================

@app.post("/analyze-food")
def analyze(request: AnalysisRequest):
    """Safe/Risky verdict for one label; refuses profiles that are not complete."""
    missing = missing_profile_fields(request.profile)
    if missing:
        logger.info("Analysis refused, profile incomplete: %s", missing)
        raise HTTPException(status_code=409, detail={
            "error": "profile_incomplete",
            "message": INCOMPLETE_PROFILE_MESSAGE,
            "missing": missing,
        })

    food = request.nutrition
    prediction = analyze_food(food.nutrition(), request.profile, food.condition, food.food_name)
    return prediction.to_document()


@app.post("/generate-tips")
def generate_tips(request: TipsRequest):
    """Regenerate and store the user's five daily tips."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    result = generate_personalized_daily_tips(db, request.user_id, request.profile)
    if result is None:
        raise HTTPException(status_code=503, detail="Tip generation unavailable")
    return result


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="127.0.0.1", port=8000)
