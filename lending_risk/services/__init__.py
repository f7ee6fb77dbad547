"""Service modules"""
from .builder import Deployment, apply_risk_parameters, build_deployment
from .risk_report import AccountHealth, RiskReport

__all__ = [
    "AccountHealth",
    "Deployment",
    "RiskReport",
    "apply_risk_parameters",
    "build_deployment",
]
