"""
Trend scanning engine.

Main Components:
- sources: platform adapters producing raw trend observations
- merge: per-topic consolidation of raw observations
- score: composite trend score and the volume history cache
- lifecycle: stage classification and lifecycle prediction
- niches: niche promotion and related-topic discovery
- pipeline: one scan cycle end to end
- monitor: the interval scheduler
- app: FastAPI control surface
"""
