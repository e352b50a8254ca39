# backend/wsgi.py
from samoku import create_app

app = create_app()
