from koronet.server import main

main()
