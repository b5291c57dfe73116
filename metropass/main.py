from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from metropass.src.constants import API_TITLE, API_VERSION
from metropass.api.controller import app_metro


app = FastAPI(title=API_TITLE, version=API_VERSION)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/api", app_metro, "Metro API")
