"""
Roster Kernel - shift scheduling, publishing and approval.

Provides:
- Idempotent, rate-limited schedule publishing
- Double-booking prevention against assignments and declared unavailability
- Punch recording with geofence verification
- Exactly-once shift approval with pay computation
- Full auditability via hash chain
"""

__version__ = "0.1.0"
