from small_loader.cli import main

main()
