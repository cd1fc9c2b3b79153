# backend/wsgi.py
from yuandi import create_app

app = create_app()
