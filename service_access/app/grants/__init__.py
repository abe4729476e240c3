"""
Grants package.

An access grant is durable evidence that an email paid for a plan. Grants
are only ever inserted or status-transitioned, never deleted. The guard in
this package keeps at most one active grant per (email, plan_code).
"""
