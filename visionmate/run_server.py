import logging

from visionmate.config import Config


def main():
    logging.basicConfig(
        level=Config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    import uvicorn
    uvicorn.run(
        "visionmate.main:create_app",
        factory=True,
        host=Config.HOST,
        port=Config.PORT,
        log_level=Config.LOG_LEVEL.lower(),
    )

if __name__ == "__main__":
    main()
