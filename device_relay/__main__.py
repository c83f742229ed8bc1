from .relay_server import main

main()
