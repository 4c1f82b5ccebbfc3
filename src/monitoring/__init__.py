"""
Visit Monitoring Module
=======================

Bounded Context for field-visit SLA monitoring and alerting.

Responsibilities:
- Derive visit status (late, in progress, over time, no-show) from elapsed time
- Periodically sweep active visits and detect false->true transitions
- Create de-duplicated alerts and escalate the ones left unresolved
- Deliver alerts onward via Slack (best effort)
- Expose visit transitions and alert read/resolve over HTTP
"""

__version__ = "1.0.0"
