import uvicorn

from quizshare.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run("quizshare.main:app", host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    main()
