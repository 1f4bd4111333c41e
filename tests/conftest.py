import os

os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("GROQ_API_KEY", "test-groq-key")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["TAVILY_API_KEY"] = ""
os.environ["SERPER_API_KEY"] = ""
