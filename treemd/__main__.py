from treemd.cli import main

main()
