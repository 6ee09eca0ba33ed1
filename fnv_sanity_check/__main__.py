from fnv_sanity_check.app import main

main()
