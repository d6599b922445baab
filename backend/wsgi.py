# backend/wsgi.py
from salesops import create_app

app = create_app()
