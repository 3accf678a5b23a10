"""Bucket lifecycle policies: decorator/checker pairs for BucketReconciler."""

from typing import Tuple

from .logging import jlog
from .outcomes import CheckResult, Compliant, ComplianceChecker, NonCompliant, PolicyDecorator
from .schemas import BucketSnapshot, LifecycleRule

DELETE = "Delete"


def expiring_rule(ttl_days: int) -> LifecycleRule:
    return LifecycleRule(action_type=DELETE, condition={"age": ttl_days})


def expiring_decorator(ttl_days: int) -> PolicyDecorator:
    """Replaces the bucket's lifecycle rules with a single delete-after-ttl rule."""
    rule = expiring_rule(ttl_days)

    def decorate(snapshot: BucketSnapshot) -> BucketSnapshot:
        # Existing rules are replaced, not augmented
        return snapshot.model_copy(update={"lifecycle_rules": (rule,)})

    return decorate


def _matches_ttl(rule: LifecycleRule, ttl_days: int) -> bool:
    if rule.action_type.lower() != DELETE.lower():
        return False
    if len(rule.condition) != 1:
        return False
    age = rule.condition.get("age")
    return age is not None and age == ttl_days


def expiring_checker(ttl_days: int) -> ComplianceChecker:
    """Compliant only when the bucket has exactly one rule: Delete at age == ttl_days."""

    def check(snapshot: BucketSnapshot) -> CheckResult:
        rules: Tuple[LifecycleRule, ...] = snapshot.lifecycle_rules
        if not rules:
            return NonCompliant(snapshot, "no lifecycle rules")

        if len(rules) != 1:
            jlog(event="complex_lifecycle_rule", severity="WARNING", bucket=snapshot.name, rules=len(rules))
            return NonCompliant(snapshot, f"{len(rules)} lifecycle rules, expected 1")

        if _matches_ttl(rules[0], ttl_days):
            return Compliant(snapshot)

        jlog(event="mismatched_lifecycle_rule", severity="WARNING", bucket=snapshot.name, ttl=ttl_days)
        return NonCompliant(snapshot, f"lifecycle rule does not delete at age {ttl_days}")

    return check


def always_compliant(snapshot: BucketSnapshot) -> CheckResult:
    return Compliant(snapshot)


def identity(snapshot: BucketSnapshot) -> BucketSnapshot:
    return snapshot
