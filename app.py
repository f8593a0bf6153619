import os

from supplyhub import create_app

app = create_app()

if __name__ == "__main__":
    # Development server only; production runs through gunicorn.conf.py.
    app.run(
        host=os.getenv("SUPPLYHUB_HOST", "127.0.0.1"),
        port=int(os.getenv("SUPPLYHUB_PORT", "8000")),
        debug=os.getenv("FLASK_DEBUG", "0") == "1",
    )
