"""
Conversion-readiness polling.

Provides gateway protocols for the status endpoint, timers, the progress
dialog and navigation, plus the scheduler and lifecycle that poll a book
until the server has converted it, so front-ends only supply adapters.
"""

from .interfaces import Navigator, ProgressDialog, StatusGateway, StatusResult, TimerGateway
from .service import ConversionSession, PollScheduler, SessionLifecycle, SessionState
