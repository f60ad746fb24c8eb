import os

import uvicorn

if __name__ == "__main__":
    # String form so reload can re-import campusvibe.main:app
    uvicorn.run(
        "campusvibe.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("ENVIRONMENT") != "production",
    )
