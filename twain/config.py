# config.py
import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))
DATA_DIR = os.getenv("TWAIN_DATA_DIR", os.path.join(BASE_DIR, "data"))


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL", "sqlite:///" + os.path.join(BASE_DIR, "twain.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # flat files behind the allow-list and the feedback inbox
    DATA_DIR = DATA_DIR
    USERS_FILE = os.path.join(DATA_DIR, "users.json")
    SIGNUP_REQUESTS_FILE = os.path.join(DATA_DIR, "signup_requests.json")
    FEEDBACK_FILE = os.path.join(DATA_DIR, "feedback.json")

    SIGNUP_EMAIL_DOMAIN = os.getenv("SIGNUP_EMAIL_DOMAIN", "@gmail.com")

    # seeded into the allow-list by init_db
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")
    ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR", os.path.join(DATA_DIR, "logs"))


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
