from synthq.gateway.api.v1.tts import router as tts_router

__all__ = ["routers"]
routers = [tts_router]
