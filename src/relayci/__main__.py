from relayci.cli import main

main()
