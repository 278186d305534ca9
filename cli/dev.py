def main() -> None:
    """Run development server."""
    import uvicorn

    uvicorn.run(
        "wallet.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8080,
        reload=True,
        log_level="info",
    )
