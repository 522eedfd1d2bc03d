"""
API 라우터 패키지

기능별 APIRouter를 하나로 묶어 ``/api`` 아래에 등록합니다.
"""

from fastapi import APIRouter

from . import blob, gift_groups, giftbooks, gifts_given, loans


router = APIRouter()
router.include_router(loans.router)
router.include_router(giftbooks.router)
router.include_router(gift_groups.router)
router.include_router(gifts_given.router)
router.include_router(blob.router)

__all__ = ["router"]
