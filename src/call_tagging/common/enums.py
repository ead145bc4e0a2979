"""全系统枚举: 单一真理源。"""
from enum import IntEnum, StrEnum


class DisputeRecommendation(StrEnum):
    NONE = "NONE"; REVIEW = "REVIEW"; STRONG = "STRONG"

class SelectionMode(StrEnum):
    SINGLE = "single"; MULTI = "multi"

class TagPriority(StrEnum):
    HIGHEST = "Highest"; HIGH = "High"; MEDIUM = "Medium"; LOWER = "Lower"

class ResponseMode(StrEnum):
    """Provider 输出约束模式。"""
    JSON_SCHEMA = "json_schema"; JSON_OBJECT = "json_object"


class Tier(IntEnum):
    PRIMARY_OUTCOME = 1
    QUALITY_FLAGS = 2
    CUSTOMER_INTENT = 3
    APPLIANCE_TYPE = 4
    BILLING_INDICATOR = 5
    CUSTOMER_DEMOGRAPHICS = 6
    BUYER_PERFORMANCE = 7
    TRAFFIC_QUALITY = 8
    SPECIAL_SITUATIONS = 9
    CUSTOM = 10


SINGLE_SELECT_TIERS: frozenset[Tier] = frozenset({
    Tier.PRIMARY_OUTCOME, Tier.APPLIANCE_TYPE, Tier.BILLING_INDICATOR,
})

# 缺失即判定失败的 tier
MANDATORY_TIERS: tuple[Tier, ...] = (Tier.PRIMARY_OUTCOME, Tier.BILLING_INDICATOR)


def selection_mode(tier: int) -> SelectionMode:
    return SelectionMode.SINGLE if tier in SINGLE_SELECT_TIERS else SelectionMode.MULTI


# 排序: STRONG 优先
DISPUTE_RANK: dict[str, int] = {
    DisputeRecommendation.STRONG: 1,
    DisputeRecommendation.REVIEW: 2,
    DisputeRecommendation.NONE: 3,
}

PRIORITY_RANK: dict[str, int] = {
    TagPriority.HIGHEST: 1, TagPriority.HIGH: 2,
    TagPriority.MEDIUM: 3, TagPriority.LOWER: 4,
}
