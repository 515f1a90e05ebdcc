"""
Post-migration verification layers.

- BasicVerifier: migrated objects exist remotely in the right shape
- IntegrityVerifier: counts, sampled rows and foreign keys match
- FunctionalVerifier: live probes against the remote project

VerificationRunner runs any of them and records the outcome.
"""

from hostmigrate.verification.basic import BasicVerifier
from hostmigrate.verification.compare import compare_rows
from hostmigrate.verification.functional import FunctionalVerifier
from hostmigrate.verification.integrity import IntegrityVerifier
from hostmigrate.verification.runner import (
    PlannedCheck,
    VerificationRunner,
    VerificationSession,
    Verifier,
)

__all__ = [
    "BasicVerifier",
    "FunctionalVerifier",
    "IntegrityVerifier",
    "PlannedCheck",
    "VerificationRunner",
    "VerificationSession",
    "Verifier",
    "compare_rows",
]
