"""Game domain services: rules, the per-round state machine, turn clock
and rematch coordination.

HTTP routes call into these modules; transport concerns (request parsing,
JSON rendering) stay in the api blueprints.
"""
