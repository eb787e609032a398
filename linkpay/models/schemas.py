from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class AffiliateRefSchema(BaseModel):
    id: int
    name: str
    email: str


class LinkRefSchema(BaseModel):
    id: int
    name: str
    slug: str


class AffiliateSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    email: str
    role: str
    status: str
    commissionRate: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("commissionRate", "commission_rate")
    )
    createdAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("createdAt", "created_at")
    )


class AffiliateCreateRequest(BaseModel):
    name: str
    email: str
    commissionRate: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("commissionRate", "commission_rate")
    )
    status: str = "pending"


class AffiliateUpdateRequest(BaseModel):
    """Admin edit. ``commissionRate: null`` clears the override."""

    model_config = ConfigDict(populate_by_name=True)

    status: Optional[str] = None
    commissionRate: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("commissionRate", "commission_rate")
    )


class LinkSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    affiliateId: int = Field(validation_alias=AliasChoices("affiliateId", "affiliate_id"))
    name: str
    slug: str
    url: str
    status: str
    commissionRate: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("commissionRate", "commission_rate")
    )
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0
    createdAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("createdAt", "created_at")
    )


class LinkCreateRequest(BaseModel):
    name: str
    url: str
    slug: str
    affiliateId: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("affiliateId", "affiliate_id")
    )
    commissionRate: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("commissionRate", "commission_rate")
    )


class LinkStatusRequest(BaseModel):
    status: str


class CommissionSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    affiliateId: int = Field(validation_alias=AliasChoices("affiliateId", "affiliate_id"))
    linkId: Optional[int] = Field(default=None, validation_alias=AliasChoices("linkId", "link_id"))
    amount: float
    saleAmount: float = Field(validation_alias=AliasChoices("saleAmount", "sale_amount"))
    rateUsed: float = Field(validation_alias=AliasChoices("rateUsed", "rate_used"))
    currency: str = "USD"
    description: Optional[str] = None
    status: str
    uniqueId: Optional[str] = Field(default=None, validation_alias=AliasChoices("uniqueId", "unique_id"))
    stripeChargeId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("stripeChargeId", "stripe_charge_id")
    )
    approvedAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("approvedAt", "approved_at")
    )
    reversedAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("reversedAt", "reversed_at")
    )
    reverseReason: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("reverseReason", "reverse_reason")
    )
    reverseAmount: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("reverseAmount", "reverse_amount")
    )
    createdAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("createdAt", "created_at")
    )


class ConversionRequest(BaseModel):
    """Pixel payload; accepts both camelCase and the legacy snake_case fields."""

    affiliateId: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("affiliateId", "affiliate_id")
    )
    linkId: Optional[int] = Field(default=None, validation_alias=AliasChoices("linkId", "link_id"))
    saleAmount: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("saleAmount", "sale_amount", "amount")
    )
    uniqueId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("uniqueId", "unique_id")
    )
    chargeId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("chargeId", "charge_id")
    )
    description: Optional[str] = None


class ConversionResponse(BaseModel):
    success: bool
    status: str
    commission: CommissionSchema


class CommissionRejectRequest(BaseModel):
    reason: Optional[str] = None


class RefundRequest(BaseModel):
    chargeId: str = Field(validation_alias=AliasChoices("chargeId", "charge_id"))
    refundAmount: Decimal = Field(validation_alias=AliasChoices("refundAmount", "refund_amount"))
    reason: str = "refund"
    originalAmount: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("originalAmount", "original_amount")
    )
    chargeReference: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("chargeReference", "charge_reference")
    )


class ReversalResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    commissionId: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("commissionId", "commission_id")
    )
    reverseAmount: float = Field(
        default=0.0, validation_alias=AliasChoices("reverseAmount", "reverse_amount")
    )
    refundProportion: float = Field(
        default=0.0, validation_alias=AliasChoices("refundProportion", "refund_proportion")
    )


class WebhookAckResponse(BaseModel):
    received: bool = True
    status: str
    reason: Optional[str] = None


class PayoutSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    affiliateId: int = Field(validation_alias=AliasChoices("affiliateId", "affiliate_id"))
    amount: float
    method: str
    status: str
    transactionId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("transactionId", "transaction_id")
    )
    date: datetime
    updatedAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("updatedAt", "updated_at")
    )


class PayoutListResponse(BaseModel):
    payouts: List[PayoutSchema] = Field(default_factory=list)
    availableBalance: float = Field(
        validation_alias=AliasChoices("availableBalance", "available_balance")
    )


class PayoutRequest(BaseModel):
    amount: Optional[Decimal] = None
    method: Optional[str] = None


class PayoutStatusRequest(BaseModel):
    status: str
    transactionId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("transactionId", "transaction_id")
    )


class BalanceResponse(BaseModel):
    affiliateId: int = Field(validation_alias=AliasChoices("affiliateId", "affiliate_id"))
    availableBalance: float = Field(
        validation_alias=AliasChoices("availableBalance", "available_balance")
    )


class AnalyticsTotalsSchema(BaseModel):
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0
    conversionRate: float = Field(
        default=0.0, validation_alias=AliasChoices("conversionRate", "conversion_rate")
    )


class AnalyticsChartPointSchema(BaseModel):
    date: str
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0


class AnalyticsTopLinkSchema(BaseModel):
    id: int
    name: str
    slug: str
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0


class AnalyticsResponseSchema(BaseModel):
    range: str
    summary: AnalyticsTotalsSchema
    chart: List[AnalyticsChartPointSchema] = Field(default_factory=list)
    topLinks: List[AnalyticsTopLinkSchema] = Field(
        default_factory=list, validation_alias=AliasChoices("topLinks", "top_links")
    )


class LeaderboardEntrySchema(BaseModel):
    rank: int
    affiliateId: int = Field(validation_alias=AliasChoices("affiliateId", "affiliate_id"))
    name: str
    email: str
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0
    conversionRate: float = Field(
        default=0.0, validation_alias=AliasChoices("conversionRate", "conversion_rate")
    )


class LeaderboardResponseSchema(BaseModel):
    range: str
    leaderboard: List[LeaderboardEntrySchema] = Field(default_factory=list)


class FunnelAffiliateSchema(BaseModel):
    affiliateId: int = Field(validation_alias=AliasChoices("affiliateId", "affiliate_id"))
    name: str
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0
    conversionRate: float = Field(
        default=0.0, validation_alias=AliasChoices("conversionRate", "conversion_rate")
    )


class FunnelCampaignSchema(BaseModel):
    linkId: Optional[int] = Field(default=None, validation_alias=AliasChoices("linkId", "link_id"))
    name: str
    slug: Optional[str] = None
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0
    conversionRate: float = Field(
        default=0.0, validation_alias=AliasChoices("conversionRate", "conversion_rate")
    )


class DateRangeSchema(BaseModel):
    start: Optional[str] = None
    end: str


class FunnelResponseSchema(BaseModel):
    range: str
    funnel: AnalyticsTotalsSchema
    affiliateBreakdown: List[FunnelAffiliateSchema] = Field(
        default_factory=list,
        validation_alias=AliasChoices("affiliateBreakdown", "affiliate_breakdown"),
    )
    campaignBreakdown: List[FunnelCampaignSchema] = Field(
        default_factory=list,
        validation_alias=AliasChoices("campaignBreakdown", "campaign_breakdown"),
    )
    dateRange: DateRangeSchema = Field(validation_alias=AliasChoices("dateRange", "date_range"))


class AdminStatsSchema(BaseModel):
    totalAffiliates: int = Field(validation_alias=AliasChoices("totalAffiliates", "total_affiliates"))
    activeAffiliates: int = Field(validation_alias=AliasChoices("activeAffiliates", "active_affiliates"))
    pendingAffiliates: int = Field(
        validation_alias=AliasChoices("pendingAffiliates", "pending_affiliates")
    )
    totalRevenue: float = Field(validation_alias=AliasChoices("totalRevenue", "total_revenue"))
    pendingPayouts: float = Field(validation_alias=AliasChoices("pendingPayouts", "pending_payouts"))
    monthlyPayouts: float = Field(validation_alias=AliasChoices("monthlyPayouts", "monthly_payouts"))


class SuspiciousClickSchema(BaseModel):
    id: int
    ip: Optional[str] = None
    userAgent: Optional[str] = Field(default=None, validation_alias=AliasChoices("userAgent", "user_agent"))
    referrer: Optional[str] = None
    deviceType: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("deviceType", "device_type")
    )
    isBot: bool = Field(validation_alias=AliasChoices("isBot", "is_bot"))
    botType: Optional[str] = Field(default=None, validation_alias=AliasChoices("botType", "bot_type"))
    fraudScore: int = Field(validation_alias=AliasChoices("fraudScore", "fraud_score"))
    timestamp: datetime
    link: LinkRefSchema
    affiliate: AffiliateRefSchema


class FraudOffenderSchema(BaseModel):
    affiliate: AffiliateRefSchema
    suspiciousClicks: int = Field(
        validation_alias=AliasChoices("suspiciousClicks", "suspicious_clicks")
    )
    avgFraudScore: int = Field(validation_alias=AliasChoices("avgFraudScore", "avg_fraud_score"))
    lastActivity: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("lastActivity", "last_activity")
    )


class FraudReportSchema(BaseModel):
    recentClicks: List[SuspiciousClickSchema] = Field(
        default_factory=list, validation_alias=AliasChoices("recentClicks", "recent_clicks")
    )
    topOffenders: List[FraudOffenderSchema] = Field(
        default_factory=list, validation_alias=AliasChoices("topOffenders", "top_offenders")
    )


class AuditLogSchema(BaseModel):
    id: int
    action: str
    targetType: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("targetType", "target_type")
    )
    targetId: Optional[int] = Field(default=None, validation_alias=AliasChoices("targetId", "target_id"))
    details: dict = Field(default_factory=dict)
    ipAddress: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ipAddress", "ip_address")
    )
    createdAt: datetime = Field(validation_alias=AliasChoices("createdAt", "created_at"))
    admin: Optional[AffiliateRefSchema] = None
