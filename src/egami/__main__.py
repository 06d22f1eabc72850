from egami.cli import app

app()
