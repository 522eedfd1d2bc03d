"""
Services 패키지

복합 장부 레코드(대출/상환, 선물 그룹) 서비스 클래스들을 제공합니다.
"""

from .gift_group_service import GiftGroupService
from .giftbook_service import GiftbookService
from .given_gift_service import GivenGiftService
from .loan_service import LoanAggregate, LoanService, loan_status

__all__ = [
    "GiftGroupService",
    "GiftbookService",
    "GivenGiftService",
    "LoanAggregate",
    "LoanService",
    "loan_status",
]
