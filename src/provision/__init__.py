"""Manifest-driven container provisioning.

plan_steps() turns a manifest into an ordered list of tagged steps;
ProvisioningOrchestrator runs them one at a time and stops at the first
failure.
"""

from provision.plan import BuildStep, StepKind, plan_steps
from provision.orchestrator import ProvisioningOrchestrator, StepFailure

__all__ = [
    'BuildStep',
    'StepKind',
    'plan_steps',
    'ProvisioningOrchestrator',
    'StepFailure',
]
