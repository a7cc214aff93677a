from mpm.cli.main import app

app()
