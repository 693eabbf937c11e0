"""
grading_engine/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from grading_engine.routes import grading, rubrics

router = APIRouter()

router.include_router(rubrics.router)
router.include_router(grading.router)
