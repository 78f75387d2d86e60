"""
form_brand_extraction turns uploaded PDF forms and live websites into a JSON
form schema and a brand color palette, using a vision model with deterministic
fallbacks.

The layout mirrors the pipeline: rasterization, model invocation, response
sanitization, palette heuristics, and the orchestrators that chain them.
"""

__all__ = [
    "agents",
    "capture",
    "config",
    "errors",
    "orchestrator",
    "palette",
    "preprocess",
    "sanitize",
    "schema",
]
