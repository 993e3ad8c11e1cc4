"""HTTP surface: FastAPI app, routers, request/response models and caller identity."""
