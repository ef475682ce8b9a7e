"""
credbroker.rules

Authorization rule engine.

Responsibilities:
- Anchored glob matching (`patterns`).
- Ordered AWS/GCP rule sets with first-match-wins evaluation (`models`).
"""

from credbroker.rules.models import AWSRule, AWSRules, Arn, GCPRule, GCPRules, parse_arn

__all__ = ["AWSRule", "AWSRules", "Arn", "GCPRule", "GCPRules", "parse_arn"]
