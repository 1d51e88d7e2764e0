from mediashare.cli import main

main()
