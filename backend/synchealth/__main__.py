from synchealth.main import run

run()
