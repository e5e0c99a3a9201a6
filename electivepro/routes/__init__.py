"""HTTP layer: portal blueprints, tenant guard and JSON error mapping."""
