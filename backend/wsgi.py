# backend/wsgi.py
from gudang import create_app

app = create_app()
