"""Concrete engines. Load through sfmstage.core.engine.create_engine()."""
