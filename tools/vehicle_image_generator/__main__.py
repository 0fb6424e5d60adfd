from .generate_vehicle_images import main

main()
