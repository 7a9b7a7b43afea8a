import uvicorn

if __name__ == "__main__":
    print("🚀 Starting TableBook reservation service...")

    # Start the server
    uvicorn.run(
        "tablebook.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
