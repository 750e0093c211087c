from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from promo_engine.api.exceptions import BusinessException
from promo_engine.core.config import settings
from promo_engine.core.database import get_db_session
from promo_engine.models.coupon import CouponRedemptionError
from promo_engine.models.pricing import CartLineItem, Product
from promo_engine.repositories.rule_repository import RuleRepository
from promo_engine.services.cart_service import CartService
from promo_engine.services.coupon_service import CouponService
from promo_engine.services.discount_calculator import format_discount_value
from promo_engine.services.discount_resolver import DiscountResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pricing", tags=["定价"])


class ProductDiscountRequest(BaseModel):
    products: List[Product] = Field(default_factory=list, description="待定价商品")


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, description="优惠券代码")
    user_id: Optional[str] = Field(None, description="用户ID，游客为空")
    subtotal: Decimal = Field(..., ge=0, description="商品折后小计")


class CartSummaryRequest(BaseModel):
    items: List[CartLineItem] = Field(default_factory=list, description="购物车项目")
    user_id: Optional[str] = None
    coupon_code: Optional[str] = None


class CouponRedeemRequest(BaseModel):
    code: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    order_id: Optional[str] = None
    subtotal: Decimal = Field(..., ge=0)


async def get_rule_repository(db: AsyncSession = Depends(get_db_session)) -> RuleRepository:
    return RuleRepository(db)


def get_discount_resolver(rule_repo: RuleRepository = Depends(get_rule_repository)) -> DiscountResolver:
    return DiscountResolver(rule_repo)


def get_coupon_service(rule_repo: RuleRepository = Depends(get_rule_repository)) -> CouponService:
    return CouponService(rule_repo)


def get_cart_service(
    rule_repo: RuleRepository = Depends(get_rule_repository),
    resolver: DiscountResolver = Depends(get_discount_resolver),
    coupon_service: CouponService = Depends(get_coupon_service)
) -> CartService:
    return CartService(rule_repo, resolver=resolver, coupon_service=coupon_service)


@router.post("/products/discounts")
async def resolve_product_discounts(
    request: ProductDiscountRequest,
    resolver: DiscountResolver = Depends(get_discount_resolver)
):
    """批量计算商品折扣"""
    results = await resolver.resolve_discounts_for_products(request.products)
    return {"success": True, "data": results}


@router.post("/coupons/validate")
async def validate_coupon(
    request: CouponValidateRequest,
    coupon_service: CouponService = Depends(get_coupon_service)
):
    """验证优惠券，不通过时返回原因而非错误"""
    validation = await coupon_service.validate_coupon(request.code, request.user_id, request.subtotal)
    data = validation.model_dump(mode="json")
    if validation.is_valid:
        data["display_value"] = format_discount_value(validation.coupon, settings.currency_symbol)
    return {"success": True, "data": data}


@router.get("/coupons/available")
async def list_available_coupons(
    user_id: Optional[str] = Query(None, description="用户ID"),
    coupon_service: CouponService = Depends(get_coupon_service)
):
    """获取当前可用的优惠券"""
    coupons = await coupon_service.get_available_coupons(user_id=user_id)
    data = []
    for item in coupons:
        entry = item.model_dump(mode="json")
        entry["display_value"] = format_discount_value(item.coupon, settings.currency_symbol)
        data.append(entry)
    return {"success": True, "data": data}


@router.post("/cart/summary")
async def cart_summary(
    request: CartSummaryRequest,
    cart_service: CartService = Depends(get_cart_service)
):
    """计算购物车汇总"""
    try:
        summary = await cart_service.compute_cart_summary(
            request.items,
            user_id=request.user_id,
            coupon_code=request.coupon_code
        )
    except ValueError as e:
        raise BusinessException(code="invalid_cart", message=str(e), status_code=400)

    data = summary.model_dump(mode="json")
    data["total_discount"] = str(summary.total_discount)
    return {"success": True, "data": data}


@router.post("/coupons/redeem")
async def redeem_coupon(
    request: CouponRedeemRequest,
    coupon_service: CouponService = Depends(get_coupon_service)
):
    """订单完成时核销优惠券"""
    try:
        record = await coupon_service.redeem_coupon(
            request.code,
            request.user_id,
            request.order_id,
            request.subtotal
        )
    except CouponRedemptionError as e:
        raise BusinessException(
            code=e.rejection.reason.value,
            message=e.rejection.message,
            status_code=409,
            details=e.rejection.model_dump(mode="json")
        )

    logger.info(f"订单 {request.order_id} 核销优惠券 {request.code}")
    return {"success": True, "data": record}
