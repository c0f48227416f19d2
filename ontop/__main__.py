from ontop.cli import app

app()
