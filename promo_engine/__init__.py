"""
多商家商城折扣与优惠券定价引擎
"""
