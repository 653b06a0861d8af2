from davit.main import main

main()
