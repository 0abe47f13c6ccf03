from dbgateway.main import run

run()
