# backend/wsgi.py
from gasbook import create_app

app = create_app()
