# backend/wsgi.py
from quoteflow import create_app

app = create_app()
