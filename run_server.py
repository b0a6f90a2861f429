import uvicorn
import os

if __name__ == "__main__":
    print("Starting BeliefStream API Server...")
    print("Docs available at: http://localhost:8000/docs")

    uvicorn.run(
        "beliefstream.api.server:app",
        host=os.environ.get("BELIEFSTREAM_HOST", "0.0.0.0"),
        port=int(os.environ.get("BELIEFSTREAM_PORT", "8000")),
        reload=True
    )
