"""Application automation module.

This module provides:
- StructuralProber: heuristic discovery of controls and fields
- FormFillEngine: profile and answer-provider driven form filling
- ChallengeResolver: anti-bot challenge handling
- SubmissionVerifier: post-submit success scoring
- PlatformHandler: shared apply/login/fill/submit state machine
- ApplicationOrchestrator: sequential run over discovered jobs

Submodules are imported directly (``applybot.automation.handler``) so that
the shared models stay importable from storage without a cycle.
"""
