from factorio_sensei.cli import main

main()
