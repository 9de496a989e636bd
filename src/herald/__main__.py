from herald.cli.app import app

app()
