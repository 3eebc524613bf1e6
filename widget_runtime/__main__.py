from .messenger import main

main()
