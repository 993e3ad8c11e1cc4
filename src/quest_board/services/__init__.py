"""Application services composing the engine into request-level flows."""
