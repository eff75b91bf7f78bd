from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from trackscope.routers import lint

app = FastAPI(
    title="Trackscope Server",
    description="API for reactivity-flow analysis of fine-grained reactive UI code.",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for local development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(lint.router)

@app.get("/api-status")
async def root():
    return {"message": "Trackscope Server is running. Visit /docs for API documentation."}
