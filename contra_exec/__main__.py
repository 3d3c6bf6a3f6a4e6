from contra_exec.cli import main

main()
