from icp_screener.cli import main

main()
