# backend/wsgi.py
from merchant_dash import create_app

app = create_app()
